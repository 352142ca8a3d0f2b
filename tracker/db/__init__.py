"""Postgres persistence: users, linked osu! players, schema migrations."""
