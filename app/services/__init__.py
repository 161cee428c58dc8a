# Services package.
#
# Each module exposes async functions that encapsulate business logic and
# database access for one aggregate:
#
#   publication_service  - CRUD, visibility, tags and cache shared by articles and tidings
#   article_service      - article CRUD + change history
#   tiding_service       - tiding CRUD
#   comment_service      - polymorphic, append-only comments
#   tag_service          - per-tag listings and the tag cloud
#   statistics_service   - cached reporting aggregates
#   user_service         - CRUD for User
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
