"""IAQHub integration clients."""
