"""
Rollcall - School Management API

A reflective RPC dispatcher (/api/<module>/<method>) with per-route
middleware stacks inferred from handler declarations, serving users,
schools, classrooms and students.
"""

__version__ = "0.1.0"
