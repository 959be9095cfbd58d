"""Leo — digital cat chat backend and X posting bot."""
