"""Display helpers: logging setup, console banners and rich tables."""
