from tennis_scoring.config import configure_logging
from tennis_scoring.match_session import MatchSession
from tennis_scoring.models import Player

configure_logging()

session = MatchSession()
session.subscribe(lambda s: print(s.to_dict()["score"]))

session.execute("create_new_match", Player("Alice", country="FRA", seed=1), Player("Bob"))
session.execute("start_match")


def win_game(player):
    for _ in range(4):
        session.execute("add_point", player)


# Set 1: Alice 6-2
for _ in range(4):
    win_game(1)
for _ in range(2):
    win_game(2)
for _ in range(2):
    win_game(1)

# Set 2: 6-6, tiebreak 7-5 to Alice
for _ in range(6):
    win_game(1)
    win_game(2)

for _ in range(5):
    session.execute("add_point", 1)
    session.execute("add_point", 2)
session.execute("add_point", 1)
session.execute("add_point", 1)  # 7-5 -> match

print("\nFinal:")
print(session.get_snapshot().to_dict())

print("\nTrying to add point after match...")

session.execute("add_point", 2)  # no-op
