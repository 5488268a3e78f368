"""Domain services: provider adapters, history recording and image storage."""
