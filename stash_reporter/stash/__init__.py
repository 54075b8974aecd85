"""Bitbucket Server (Stash) integration modules.

Split into:
  - client.py  : REST 1.0 calls over one requests.Session per run
  - diff.py    : read-only view of a pull-request diff
  - markdown.py: comment bodies
  - facade.py  : runner-facing operations built on the client
"""
