"""Backend API gateway: proxies browser calls to the backend API."""
