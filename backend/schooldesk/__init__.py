"""SchoolDesk: role and location scoped school administration API."""
