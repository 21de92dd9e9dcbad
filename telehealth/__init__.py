"""Telehealth booking gateway backed by the Square scheduling platform."""
