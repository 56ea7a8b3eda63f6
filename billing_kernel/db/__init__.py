"""Database infrastructure: declarative base, money types, engine, immutability."""
