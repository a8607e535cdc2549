FRIENDLY_MESSAGES = {
    "ConnectionError": "Unable to connect to a required service. Please try again later.",
    "TimeoutError": "The request took too long. Please try again later.",
    "SQLAlchemyError": "Temporary issue while accessing data. Please try again shortly.",
    "StripeError": "Our payment provider is unavailable right now. Please try again shortly.",
    "ValueError": "Invalid data received. Please check your input and try again.",
    "KeyError": "Some required information is missing.",
}


def get_friendly_message(error: Exception) -> str:
    for klass in type(error).__mro__:
        msg = FRIENDLY_MESSAGES.get(klass.__name__)
        if msg:
            return msg
    return "Something went wrong on our end. Please try again."
