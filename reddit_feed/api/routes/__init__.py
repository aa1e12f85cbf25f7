"""Broker API routers."""
