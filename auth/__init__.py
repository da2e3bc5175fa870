"""auth/ -- Session authentication and tenant gating for TenantGate.

Layer rule: auth/ imports only stdlib + third-party libraries, plus
core.config for the Settings type. It does NOT import from api/ or web/.
api/ and web/ import from auth/, not the other way around.
"""
