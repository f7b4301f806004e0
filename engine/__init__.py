"""
Execution engine: collision guard, action dispatch, post-write validation
and the bounded correction loop.
"""
