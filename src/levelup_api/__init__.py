"""LevelUp loyalty points and redemption order service."""
