"""
Word lists and user agents the event generator draws from.

Page paths come from the first 40 words; chat messages, names and e-mail
addresses from the whole list.
"""

PAGE_LOAD = "page_load"
CHAT_MESSAGE = "chat_message"
FORM_SUBMIT = "form_submit"

EVENT_TYPES = [PAGE_LOAD, CHAT_MESSAGE, FORM_SUBMIT]

CONTACT_US = "contact-us"
FEEDBACK = "feedback"

FORM_TYPES = [CONTACT_US, FEEDBACK]

BROWSERS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.4 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X x.y; rv:42.0) Gecko/20100101 Firefox/42.0",
    "Mozilla/5.0 (Windows NT 6.1; Win64; x64; rv:47.0) Gecko/20100101 Firefox/47.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/51.0.2704.103 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/51.0.2704.106 Safari/537.36 OPR/38.0.2220.41",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36 Edg/91.0.864.59",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 13_5_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/13.1.1 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:109.0) Gecko/20100101 Firefox/111.0",
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
    "curl/7.64.1",
]

# 200 most common words
WORDS = [
    "water", "away", "good", "want", "over", "how", "did", "man", "going",
    "where", "would", "or", "took", "school", "think", "home", "who",
    "didn’t", "ran", "know", "bear", "can’t", "again", "cat", "long",
    "things", "new", "after", "wanted", "eat", "everyone", "our", "two",
    "has", "yes", "play", "take", "thought", "dog", "well", "find",
    "more", "I’ll", "round", "tree", "magic", "shouted", "us", "other",
    "food", "fox", "through", "way", "been", "stop", "must", "red",
    "door", "right", "sea", "these", "began", "boy", "animals", "never",
    "next", "first", "work", "lots", "need", "that’s", "baby", "fish",
    "gave", "mouse", "something", "bed", "may", "still", "found", "live",
    "say", "soon", "night", "narrator", "small", "car", "couldn’t", "three",
    "head", "king", "town", "I’ve", "around", "every", "garden", "fast",
    "only", "many", "laughed", "let’s", "much", "suddenly", "told", "another",
    "great", "why", "cried", "keep", "room", "last", "jumped", "because",
    "even", "am", "before", "gran", "clothes", "tell", "key", "fun",
    "place", "mother", "sat", "boat", "window", "sleep", "feet", "morning",
    "queen", "each", "book", "its", "green", "different", "let", "girl",
    "which", "inside", "run", "any", "under", "hat", "snow", "air",
    "trees", "bad", "tea", "top", "eyes", "fell", "friends", "box",
    "dark", "grandad", "there’s", "looking", "end", "than", "best", "better",
    "hot", "sun", "across", "gone", "hard", "floppy", "really", "wind",
    "wish", "eggs", "once", "please", "thing", "stopped", "ever", "miss",
    "most", "cold", "park", "lived", "birds", "duck", "horse", "rabbit",
    "white", "coming", "he’s", "river", "liked", "giant", "looks", "use",
    "along", "plants", "dragon", "pulled", "we’re", "fly", "grow",
]

PATH_WORDS = WORDS[:40]
