"""auth/ -- Accounts, sessions, profiles and role administration for EquitySight.

Layer rule: auth/ imports from store/ and core/ plus third-party libraries.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
