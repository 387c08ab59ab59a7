"""helpdesk/ -- Tickets, organizations and the activity log for SecDesk.

Layer rule: helpdesk/ imports from core/ (SLA engine, errors, config) and
third-party libraries only. It does NOT import from api/ or cmdb/.
"""
