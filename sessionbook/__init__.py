"""SessionBook - consultation booking and video call backend"""
