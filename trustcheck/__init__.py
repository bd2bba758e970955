# trustcheck - confidence-scored trust classification for account profiles
