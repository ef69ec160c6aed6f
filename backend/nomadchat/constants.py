"""Hub-wide constants shared by the chat core and the storage layer."""

# Name of the single shared room every connection joins on connect.
MAIN_CHAT_ROOM_NAME = "MainChatRoom"

# Joins the two usernames of a private room. Usernames may not contain it.
PRIVATE_ROOM_SEPARATOR = "-"
