"""NiceGUI web interface for chat interactions.

Renders the conversation held by a ConversationController and forwards
user actions (send, stop, retry, clear, model switch) to it.
"""
