"""
Whistlenoid - Physics Engine
Ball integration, wall/paddle/brick reflection, scoring and the loss check.
All state is immutable; advance() returns a new GameState every tick.
"""

from dataclasses import dataclass, replace

from config import GameConfig


@dataclass(frozen=True)
class GameGeometry:
    """Playfield sizes derived from GameConfig."""
    width: float
    height: float
    paddle_width: float
    paddle_height: float
    paddle_y: float
    ball_radius: float
    brick_rows: int
    brick_columns: int
    brick_width: float
    brick_height: float
    brick_padding: float
    brick_offset_top: float
    brick_offset_left: float
    ball_start_height: float

    @classmethod
    def from_config(cls, config: GameConfig) -> "GameGeometry":
        width = float(config.canvas_width)
        height = float(config.canvas_height)
        paddle_height = height / 60
        brick_width = width / 10
        brick_padding = paddle_height
        return cls(
            width=width,
            height=height,
            paddle_width=width / 4,
            paddle_height=paddle_height,
            paddle_y=height - paddle_height - config.paddle_bottom_gap,
            ball_radius=paddle_height,
            brick_rows=config.brick_rows,
            brick_columns=config.brick_columns,
            brick_width=brick_width,
            brick_height=height / 30,
            brick_padding=brick_padding,
            brick_offset_top=brick_padding,
            brick_offset_left=width - config.brick_columns * (brick_width + brick_padding),
            ball_start_height=config.ball_start_height,
        )


@dataclass(frozen=True)
class Paddle:
    x: float
    y: float


@dataclass(frozen=True)
class Ball:
    x: float
    y: float
    dx: float
    dy: float


@dataclass(frozen=True)
class Brick:
    x: float
    y: float
    alive: bool = True


@dataclass(frozen=True)
class GameState:
    paddle: Paddle
    ball: Ball
    bricks: tuple[Brick, ...]
    score: int = 0
    game_over: bool = False

    @property
    def alive_bricks(self) -> int:
        return sum(1 for brick in self.bricks if brick.alive)


def generate_bricks(geometry: GameGeometry) -> tuple[Brick, ...]:
    bricks = []
    for column in range(geometry.brick_columns):
        for row in range(geometry.brick_rows):
            bricks.append(
                Brick(
                    x=column * (geometry.brick_width + geometry.brick_padding) + geometry.brick_offset_left,
                    y=row * (geometry.brick_height + geometry.brick_padding) + geometry.brick_offset_top,
                )
            )
    return tuple(bricks)


def new_game(geometry: GameGeometry) -> GameState:
    return GameState(
        paddle=Paddle(
            x=geometry.width / 2 - geometry.paddle_width / 2,
            y=geometry.paddle_y,
        ),
        ball=Ball(
            x=geometry.width / 2,
            y=geometry.height - geometry.ball_start_height,
            dx=geometry.paddle_height / 6,
            dy=geometry.paddle_height / -5,
        ),
        bricks=generate_bricks(geometry),
    )


def move_ball(ball: Ball, geometry: GameGeometry) -> Ball:
    """Integrate one step, then reflect off the side and top walls.

    A component only flips while the ball still heads into the wall, so a
    ball that lingers inside the boundary band after bouncing keeps going.
    """
    x = ball.x + ball.dx
    y = ball.y + ball.dy
    dx = ball.dx
    dy = ball.dy
    r = geometry.ball_radius

    if (x + r > geometry.width and dx > 0) or (x - r < 0 and dx < 0):
        dx = -dx
    if y - r < 0 and dy < 0:
        dy = -dy

    return Ball(x=x, y=y, dx=dx, dy=dy)


def reflect_off_paddle(ball: Ball, paddle: Paddle, geometry: GameGeometry) -> Ball:
    if (
        ball.y + geometry.ball_radius > paddle.y
        and paddle.x < ball.x < paddle.x + geometry.paddle_width
        and ball.dy > 0
    ):
        return replace(ball, dy=-ball.dy)
    return ball


def _ball_inside(ball: Ball, brick: Brick, geometry: GameGeometry) -> bool:
    return (
        brick.x < ball.x < brick.x + geometry.brick_width
        and brick.y < ball.y < brick.y + geometry.brick_height
    )


def collide_bricks(
    ball: Ball, bricks: tuple[Brick, ...], geometry: GameGeometry
) -> tuple[Ball, tuple[Brick, ...], int]:
    """Knock out every alive brick under the ball centre.

    Each hit flips dy on its own, so two hits in one tick cancel out.
    Returns the new ball, the new brick tuple and the number of hits.
    """
    dy = ball.dy
    hits = 0
    updated = []
    for brick in bricks:
        if brick.alive and _ball_inside(ball, brick, geometry):
            dy = -dy
            hits += 1
            updated.append(replace(brick, alive=False))
        else:
            updated.append(brick)
    if not hits:
        return ball, bricks, 0
    return replace(ball, dy=dy), tuple(updated), hits


def is_ball_lost(ball: Ball, geometry: GameGeometry) -> bool:
    return ball.y + geometry.ball_radius > geometry.height


def advance(state: GameState, geometry: GameGeometry) -> GameState:
    """Run one physics step. A finished game is returned unchanged."""
    if state.game_over:
        return state

    ball = move_ball(state.ball, geometry)
    ball = reflect_off_paddle(ball, state.paddle, geometry)
    ball, bricks, hits = collide_bricks(ball, state.bricks, geometry)

    return GameState(
        paddle=state.paddle,
        ball=ball,
        bricks=bricks,
        score=state.score + hits,
        game_over=is_ball_lost(ball, geometry),
    )
