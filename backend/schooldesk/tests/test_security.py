from schooldesk.main import app, PUBLIC_PATHS
from schooldesk.auth import get_current_user


def test_all_routes_protected():
    for route in app.routes:
        path = getattr(route, 'path', '')
        if not path.startswith('/api'):
            continue
        if path in PUBLIC_PATHS:
            continue
        if not hasattr(route, 'dependant'):
            continue
        deps = [d.call for d in route.dependant.dependencies]
        assert get_current_user in deps, f"{path} missing authentication"


def test_public_paths_are_only_the_token_flows():
    assert PUBLIC_PATHS == {
        "/api/auth/login",
        "/api/auth/request-password-reset",
        "/api/auth/reset-password",
        "/api/locations/accept-invitation",
    }
