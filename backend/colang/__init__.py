"""Colang credential service.

This package holds the account and credential slice of the Colang
language-learning backend: password hashing, signed access tokens and
one-time desktop authorization codes, exposed through a small FastAPI
application. Individual modules contain the concrete implementations
and documentation.
"""
