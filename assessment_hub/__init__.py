"""Assessment Hub: multi-tenant skills assessment service."""
