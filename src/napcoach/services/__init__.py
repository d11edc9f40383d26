"""Sleep learning, scheduling, coaching and reminder services."""
