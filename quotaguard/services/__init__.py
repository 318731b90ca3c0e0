"""Services package for the limiter."""
