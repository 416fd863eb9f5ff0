"""Price alerts: evaluator and email notifications."""
