"""Activity playback engine for quizzes and multi-stage quests."""

__version__ = "0.1.0"
