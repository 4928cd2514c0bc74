from app.commands.messages.send_message_command import SendMessageCommand

__all__ = ["SendMessageCommand"]
