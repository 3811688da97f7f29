"""Routines: data model, schedule calculations, storage, scheduling and activation."""
