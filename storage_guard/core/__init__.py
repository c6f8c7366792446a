"""Core building blocks: settings, exceptions and the policy engine."""
