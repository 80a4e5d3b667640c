"""Template tree expansion.

Walks a template directory and writes a translated copy: `@name@` tokens in
paths and `__name__` tokens in text lines are replaced with bound values,
binary files are copied verbatim.
"""
