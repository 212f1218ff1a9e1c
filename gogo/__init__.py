"""
GOGO Express backend.

A FastAPI service that owns the rides, orders, wallet and notification
state the delivery apps used to write straight into a hosted document
database. Status lifecycles, payments and driver dispatch are arbitrated
here instead of by each client.
"""
