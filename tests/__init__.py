# RentMarket live API suite
#
# Smoke tests (pytest + httpx) against a running, seeded server.
#
# Run with: RENTMARKET_LIVE_URL=http://127.0.0.1:5001 python -m pytest tests/api
