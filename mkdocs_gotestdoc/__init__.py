"""
mkdocs-gotestdoc — Go test documentation for MkDocs.

Statically discovers Go tests and their nested ``t.Run`` sub-tests, binds
each to its preceding comment, merges JUnit results and renders the whole
tree as a Markdown report, either as an MkDocs page or from the command line.
"""

__version__ = "1.0.0"
