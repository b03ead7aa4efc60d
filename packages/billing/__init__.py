"""
Billing package - plans, subscriptions, token ledger, invoices and payments.

This package integrates with:
- Stripe and Mercado Pago: automatic collection of open invoices
- RabbitMQ: outbound billing notifications
"""
