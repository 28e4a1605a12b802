"""fortune_oracle package."""

__all__ = []
