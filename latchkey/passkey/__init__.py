"""Passkey ceremonies: challenges, credential records, replay guard, verification."""
