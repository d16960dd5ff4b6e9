"""
Integration test modules

Tests for the payment gateway layer:
- MercadoPago and Wompi adapters
- Status normalization and minor units
- Simulated payment stores
"""
