"""Reviews app package.

Guests review an experience once they have completed a booking of it.
Each new review refreshes the experience's average rating.
"""
