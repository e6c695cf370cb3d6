# Services package.
#
# Each module exposes async functions that encapsulate business logic and
# database access for one part of the API:
#
#   user_service     registration, login, self-service updates
#   profile_service  public profiles and the follow relation
#   article_service  listing/feed queries, CRUD, favorites, listing cache
#   comment_service  comments on an article
#   tag_service      the cached tag list
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
