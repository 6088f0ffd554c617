"""Reference helpers for the ShapeScript modelling language."""

from textwrap import dedent

GRAMMAR = dedent(
"""
```
Program     := { Stmt NEWLINE }
Block       := '{' { Stmt NEWLINE } '}'
Stmt        := Shape | Csg | Group | Builder | PathStmt | PathPrim | PathPoint
             | Property | Transform | For | If | Switch | Define | Option
             | Invoke | ExprStmt

Shape       := ('cube' | 'sphere' | 'cylinder' | 'cone' | 'torus') Block?
Csg         := ('union' | 'difference' | 'intersection' | 'xor' | 'stencil') Block
Group       := 'group' Block
Builder     := ('extrude' | 'lathe' | 'loft' | 'hull' | 'minkowski' | 'fill') Block
Along       := 'along' Block                      // inside extrude only
PathStmt    := 'path' Block
PathPrim    := ('arc' | 'circle' | 'square' | 'roundrect' | 'polygon') Block?
             | 'svgpath' Run Block?
PathPoint   := ('point' | 'curve') Run            // inside path only
Property    := PROPERTY_NAME Run
Transform   := ('translate' | 'rotate' | 'scale') Run
For         := 'for' [ ID 'in' ] Run Block
If          := 'if' Expr Block { 'else' 'if' Expr Block } [ 'else' Block ]
Switch      := 'switch' Expr '{' { 'case' Run (Block | { Stmt }) } [ 'else' (Block | { Stmt }) ] '}'
Define      := 'define' ID Run
             | 'define' ID Block
             | 'define' ID '(' [ ID { [','] ID } ] ')' Block   // '(' attached to the name
Option      := 'option' ID Run                     // inside define bodies only
Invoke      := ID { Expr } Block?
ExprStmt    := Run

Run         := Expr { Expr }                       // two or more elements form a vector
Expr        := OrExpr [ 'to' OrExpr [ 'step' OrExpr ] ]
OrExpr      := AndExpr { 'or' AndExpr }
AndExpr     := EqExpr { 'and' EqExpr }
EqExpr      := CmpExpr { ('=' | '<>') CmpExpr }
CmpExpr     := AddExpr { ('<' | '<=' | '>' | '>=') AddExpr }
AddExpr     := MulExpr { ('+' | '-') MulExpr }
MulExpr     := Unary { ('*' | '/' | '%') Unary }
Unary       := ('-' | '+' | 'not') Unary | Postfix
Postfix     := Primary { '.' ID | '[' Expr ']' | '(' Args ')' }   // attached, no space
Primary     := NUMBER | STRING | 'true' | 'false' | ID | '(' Run ')'
Args        := [ Run { ',' Run } ]

PROPERTY_NAME := 'position' | 'rotation' | 'orientation' | 'size' | 'color' | 'colour'
               | 'opacity' | 'metallic' | 'roughness' | 'glow' | 'texture' | 'detail'
               | 'twist' | 'sides' | 'angle' | 'radius' | 'height'
               | 'radiusTop' | 'radiusBottom' | 'innerRadius' | 'outerRadius'
NUMBER      := digits [ '.' digits ] [ ('e' | 'E') ['+' | '-'] digits ]
STRING      := '"' { char | '\\' char } '"'
Comment     := '//' to end of line | '/*' ... '*/' (nestable)
```
"""
).strip()


_PROMPT_CORE = dedent(
"""
**Role & scope**

You write **ShapeScript** programs that describe 3D models built from primitives,
boolean operations and path-based builders. Output only ShapeScript source.

**Whitespace matters**

* Values are space separated: `position 1 2 3` is a three component vector.
* `5 -1` is the vector `(5 -1)`; `5 - 1` and `5-1` are the number `4`.
* Calls attach the parenthesis to the name: `sin(x)`. `sin (x)` is two values.
* A newline ends a value; use parentheses to continue a long expression.

**Units**

* Sizes are bounding extents: `sphere { size 1 }` has diameter 1.
* Angles given to `rotate`, `rotation`, `orientation`, `twist` and `arc { angle }`
  are in **turns** (`0.25` is a quarter turn). `sin`/`cos` take radians.
* Colors are `r g b [a]` in 0..1 or a `"#rrggbb"` string.

**Structure**

* Shapes: `cube`, `sphere`, `cylinder`, `cone`, `torus`, each with an optional
  `{ ... }` block of properties (`position`, `rotation`, `size`, `color`, ...).
* Booleans: `union`, `difference` (first shape minus the rest), `intersection`,
  `xor`, `stencil`. Each needs at least two shapes.
* Builders: `extrude`, `lathe`, `loft`, `fill` take paths; `hull` and
  `minkowski` take shapes or paths. `extrude { ... along { path } }` sweeps a
  profile along a spine.
* Paths: `path { point x y  curve x y ... }` or `circle`, `square`, `arc`,
  `roundrect`, `polygon { sides n }`, `svgpath "M 0 0 L 1 0 ..."`.
* `translate`, `rotate` and `scale` change the transform for the rest of the
  enclosing block.

**Reuse**

* `define name value` binds a constant; bindings cannot be reassigned in the
  same block.
* `define name { option size 1 ... }` declares a custom shape; invoke it as
  `name { size 2 }`.
* `define name(a b) { a * b }` declares a function; call it as `name(2, 3)`.
* `for i in 1 to 5 { ... }`, `if cond { ... } else { ... }` and
  `switch x { case 1 ... else ... }` control evaluation.

**Never**

* Never use `=` for assignment; `=` compares.
* Never reuse a keyword (`cube`, `path`, `to`, ...) as a name.
* Never put a space between a function name and its `(`.
"""
).strip()


def get_llm_prompt(*, include_grammar: bool = True) -> str:
    """Return the standard ShapeScript prompt for program-generating agents."""
    sections = [_PROMPT_CORE]
    if include_grammar:
        sections.append("SYNTAX REFERENCE (GRAMMAR)\n" + GRAMMAR)
    return "\n\n".join(sections)


LLM_PROMPT = get_llm_prompt()

__all__ = ["GRAMMAR", "LLM_PROMPT", "get_llm_prompt"]
