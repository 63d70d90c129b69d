"""Conversation monitoring: brand mentions, topics and related conversations in AI chats."""
