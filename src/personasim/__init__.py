"""Persona-consistent customer reply generation for support-training simulations."""
