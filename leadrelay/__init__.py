"""
Lead Relay — durable intake for web-form and WhatsApp leads

Packages:
    api/        Flask blueprint (intake, health, status)
    agents/     Intake coordinator, Google Sheets relay, partner form replicator
    core/       Settings, paths, journals, records, startup checks
"""
