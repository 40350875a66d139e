"""Pipeline stages.

Modules:
    intake        — Orders capture → relay → reply → replication per lead
    sheet_relay   — Synchronous POST to the Google Sheets endpoint
    partner_form  — Playwright replication into the partner affiliate form
"""
