"""End-to-end activation harness for invited product users.

Provisions users through the product API, collects their invitation emails
from a hosted inbox and drives the browser through account activation.
"""

__version__ = "1.0.0"
