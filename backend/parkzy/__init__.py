"""Parkzy backend: booking lifecycle and payment capture for hourly parking spots."""
