"""
Integration modules for payhub

Contains adapters and clients for external systems:
- Payment gateways (MercadoPago, Wompi)
"""
