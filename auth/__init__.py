"""auth/ -- Authentication and authorization package for Campus Feedback.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or surveys/.
api/ imports from auth/, not the other way around.
"""
