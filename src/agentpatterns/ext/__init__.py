"""Extensions - optional transports built on the core engine."""
