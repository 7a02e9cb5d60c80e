"""State layer.

This package is the single owner of the local device mirror: how device
list results and dynamic pushes are merged into it, which of those merges
are reported, and to whom.
"""
