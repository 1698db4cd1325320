# apps/core/management/commands/seed.py

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand, CommandError

from apps.board.backends import get_selector
from apps.core.exceptions import KanbanError

DEMO_LISTS = [
    ('To Do', ['Write project brief', 'Collect requirements', 'Sketch the board layout']),
    ('Doing', ['Set up the database']),
    ('Done', ['Create repository']),
]


class Command(BaseCommand):
    help = 'Creates a demo user with a sample board through the active backend'

    def add_arguments(self, parser):
        parser.add_argument('--username', default='demo')
        parser.add_argument('--email', default='demo@example.com')
        parser.add_argument('--password', default='demo12345')

    def handle(self, *args, **options):
        selector = get_selector()
        stores = selector.stores()
        self.stdout.write(f'Seeding the {stores.backend} backend ({selector.state.value})...')

        if stores.users.find_by_username(options['username']) is not None:
            self.stdout.write(self.style.WARNING(f"User {options['username']!r} already exists, nothing to do"))
            return

        try:
            user = stores.users.create(options['username'], options['email'], make_password(options['password']))
            board = stores.boards.create('Demo Board', user['id'], description='Sample board created by seed')
            self._create_lists(stores, board)
        except KanbanError as e:
            raise CommandError(f'Seeding failed: {e.message}')

        self.stdout.write(
            self.style.SUCCESS(
                f"\nDemo data created!\n"
                f"  User:  {user['username']} / {options['password']}\n"
                f"  Board: {board['title']} (id {board['id']})\n"
            )
        )

    def _create_lists(self, stores, board):
        for title, cards in DEMO_LISTS:
            task_list = stores.lists.create(board['id'], title)
            for card_title in cards:
                stores.cards.create(task_list['id'], card_title)
            self.stdout.write(f'  List {title!r} with {len(cards)} cards')
