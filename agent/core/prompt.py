"""Fixed texts shown to the user and the tool description given to the assistant."""

WELCOME_MESSAGE = (
    "Cześć! Jestem twoim asystentem do wyszukiwania złotych rączek. "
    "Powiedz mi, jakiego specjalistę szukasz i w jakiej lokalizacji?"
)

NEED_MORE_INFO = (
    "Potrzebuję więcej informacji. Jakiego specjalistę szukasz i w jakim mieście/dzielnicy?"
)

NOTHING_FOUND = (
    "Nie znalazłem żadnych specjalistów pasujących do twojego zapytania. "
    "Możesz spróbować inaczej sformułować pytanie?"
)

RESULTS_FOUND = "Oto wyniki wyszukiwania, które mogą Ci pomóc:"

SEARCH_APOLOGY = "Przepraszam, wystąpił błąd podczas wyszukiwania. Spróbuj ponownie później."

ASSISTANT_APOLOGY = "Przepraszam, wystąpił błąd podczas przetwarzania wiadomości. Spróbuj ponownie później."

RUN_TIMEOUT = "Asystent nie odpowiedział na czas. Spróbuj ponownie."

# Appended to the user's text before a direct search.
SEARCH_KEYWORDS = "złota rączka fachowiec"

SEARCH_TOOL_DESCRIPTION = (
    "Search the web for local handymen and service professionals in Poland. "
    "Input is a JSON object with a single key 'query' holding the search phrase, "
    "e.g. the trade and the city. Returns up to 5 results with name, phone and link."
)
