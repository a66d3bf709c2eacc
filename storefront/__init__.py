"""Storefront: panier, checkout Stripe et matérialisation des commandes (FastAPI + Supabase)."""

__version__ = "0.1.0"
