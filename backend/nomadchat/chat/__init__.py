"""Real-time chat: presence, room routing, unread counters and the hub endpoint."""
