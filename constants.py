"""Named constants shared by the managers, the API and the CLI."""

# Pagination and sorting defaults
DEFAULT_PAGE_NO = 0
DEFAULT_PAGE_SIZE = 10
DEFAULT_SORT_BY = "id"
DEFAULT_SORT_DIRECTION = "asc"
BORROWING_SORT_DIRECTION = "desc"

# Entity labels used in "not found" messages
BOOK = "Library Book"
BORROWER = "Borrower"
BORROWING = "Borrowing"

RECORD_ID = "id"

# Business rule messages
ISBN_MISMATCH = "ISBN number must have the same title and author"
EMAIL_EXISTS = "Email ID already exists"
ALREADY_BORROWED = "LibraryBook is already borrowed by someone"
ALREADY_RETURNED = "LibraryBook already returned by borrower"

# Field validation messages
NAME_REQUIRED = "Borrower name must not be blank"
EMAIL_REQUIRED = "Borrower email must not be blank"
EMAIL_INVALID = "Borrower email must be a well-formed email address"
ISBN_REQUIRED = "ISBN must not be blank"
ISBN_SIZE = "ISBN must be between 10 and 13 characters"
TITLE_REQUIRED = "Title must not be blank"
AUTHOR_REQUIRED = "Author must not be blank"

ISBN_MIN_LENGTH = 10
ISBN_MAX_LENGTH = 13

# Largest value an SQLite INTEGER column can hold
SQLITE_MAX_INTEGER = 2**63 - 1
