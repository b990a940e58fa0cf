##########################################################################
## records.py
##
## Record types passed between the stages and the parsers for the
## text formats they are stored in:
##
##   raw ratings       user,item,rating
##   user vectors      user \t item:rating,item:rating,...
##   co-occurrence     itemA:itemB \t weight
##   partial scores    user:item \t contribution,weight
##   scores            user \t item:score
##   recommendations   user \t item:score,item:score,...

import math
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP, localcontext
from enum import IntEnum

RatingEvent = namedtuple('RatingEvent', ['user', 'item', 'rating'])
PartialScore = namedtuple('PartialScore', ['contribution', 'weight'])
Recommendation = namedtuple('Recommendation', ['item', 'score'])


class RecordKind(IntEnum):
    EDGE = 0
    RATING = 1


# Predictor reduce input, keyed by the join item. An EDGE carries the other
# item of a co-occurrence pair and its weight, a RATING carries one user's
# rating of the join item. `ident` is the item for an edge, the user for a rating.
JoinRecord = namedtuple('JoinRecord', ['kind', 'ident', 'value'])


def edge(item, weight):
    return JoinRecord(RecordKind.EDGE, item, weight)


def rating(user, value):
    return JoinRecord(RecordKind.RATING, user, value)


# characters reserved by the file formats
RESERVED = (':', ',', '\t')


def validId(ident):
    return bool(ident) and not any(c in ident for c in RESERVED)


def parseRating(line):
    # returns a RatingEvent, or None for a malformed line
    fields = line.strip().split(',')
    if len(fields) < 3:
        return None
    user, item = fields[0].strip(), fields[1].strip()
    if not (validId(user) and validId(item)):
        return None
    try:
        value = float(fields[2])
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return RatingEvent(user, item, value)


def splitKeyValue(line):
    # key<TAB>value; None when there is no tab
    parts = line.rstrip('\r\n').split('\t', 1)
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def parsePair(text, sep=':'):
    left, found, right = text.rpartition(sep)
    if not found or not left or not right:
        raise ValueError("expected a %r separated pair: %r" % (sep, text))
    return left, right


def parseItemRatings(value):
    # item:rating,item:rating,...
    itemRatings = []
    for token in value.split(','):
        item, r = parsePair(token)
        itemRatings.append((item, float(r)))
    return itemRatings


def formatItemRatings(itemRatings):
    return ",".join("%s:%r" % (item, r) for item, r in itemRatings)


def parseUserVector(line):
    kv = splitKeyValue(line)
    if kv is None:
        raise ValueError("not a user vector line: %r" % line)
    return kv[0], parseItemRatings(kv[1])


def parseCoOccurrence(line):
    # returns (itemA, itemB, weight)
    kv = splitKeyValue(line)
    if kv is None:
        raise ValueError("not a co-occurrence line: %r" % line)
    itemA, itemB = parsePair(kv[0])
    return itemA, itemB, int(kv[1])


def parsePartialScore(line):
    # returns ((user, item), PartialScore)
    kv = splitKeyValue(line)
    if kv is None:
        raise ValueError("not a partial score line: %r" % line)
    user, item = parsePair(kv[0])
    contribution, weight = parsePair(kv[1], sep=',')
    return (user, item), PartialScore(float(contribution), int(weight))


def parseScore(line):
    # returns (user, Recommendation)
    kv = splitKeyValue(line)
    if kv is None:
        raise ValueError("not a score line: %r" % line)
    item, score = parsePair(kv[1])
    return kv[0], Recommendation(item, float(score))


def parseRecommendations(line):
    # returns (user, [Recommendation, ...]); an empty value is an empty list
    kv = splitKeyValue(line)
    if kv is None:
        raise ValueError("not a recommendation line: %r" % line)
    user, value = kv
    if not value:
        return user, []
    return user, [Recommendation(item, float(score))
                  for item, score in (parsePair(token) for token in value.split(','))]


def formatRecommendations(recommendations):
    return ",".join("%s:%r" % (rec.item, rec.score) for rec in recommendations)


def roundHalfUp(value, places=3):
    # rounds the shortest decimal representation, so 2.0005 -> 2.001
    if not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-places)
    exact = Decimal(repr(value))
    with localcontext() as ctx:
        # room for every integer digit plus the kept fraction
        ctx.prec = max(28, exact.adjusted() + places + 2)
        return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))
