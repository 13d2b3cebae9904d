"""openings/ -- Recruitment posts and their Open -> Closed lifecycle.

Layer rule: openings/ imports from core/ only. It never asks "is this user an
admin?" -- callers pass the permission flags they computed from auth/.
"""
