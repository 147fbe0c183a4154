"""tasks/ -- Task storage and the tenancy-enforcing repository facade.

Layer rule: tasks/ may import from core/, auth/ and audit/. It does NOT import
from api/. api/ imports from tasks/, not the other way around.
"""
