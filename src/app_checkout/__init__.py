"""GitHub App checkout step for CI pipelines.

This package implements a GitHub Actions step that:
- Exchanges a GitHub App identity for a permission-scoped installation token
- Checks out one or more repositories of the current owner with that token
- Optionally rewrites global git credentials so later git commands in the
  job authenticate as the app
"""
