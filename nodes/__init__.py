"""
Workflow nodes.  Every module here exposing a top-level ``Node``
class is picked up by ``core.node_manager.NodeManager.discover``.
"""
