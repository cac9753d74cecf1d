"""Domain layer: library, extraction, playback and sync."""
