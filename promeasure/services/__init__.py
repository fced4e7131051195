"""
promeasure/services

Persistence-aware operations. Routes and CLI commands call these; these call the
pure engine in promeasure.wbs and own the transaction boundaries.
"""
