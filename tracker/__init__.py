"""osu! stats tracker backend: Twitter sign-in and linked osu! accounts."""
