"""auth/ -- Caller resolution for the CoilLedger HTTP surface.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or ledger/.
api/ imports from auth/, not the other way around.
"""
