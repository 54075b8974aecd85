"""SonarQube integration modules.

Split into:
  - api.py      : all HTTP calls to SonarQube (rule catalog, issue feed)
  - rules.py    : pure parsing of /api/rules/search pages
  - normalize.py: raw issue JSON -> Issue
  - types.py    : small shared data structures
"""
