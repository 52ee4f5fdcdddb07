"""
HTTP routes for famvault

Routers are imported by famvault.app_factory; this package stays import-light
so famvault.errors.handler can pull the response schemas without cycles.
"""
