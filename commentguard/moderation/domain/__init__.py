"""Domain logic for the moderation pipeline."""
