"""Real-time messaging core for the Wryft chat client."""
